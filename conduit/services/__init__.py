# Services package.
#
# Each module exposes async functions that own the queries for one part
# of the article subsystem:
#
#   author_service    — User -> ArticleAuthor resolution (find-or-create)
#   tag_service       — tag normalisation on write, cached tag list
#   favorite_service  — batch favorite counts / status, favorite toggles
#   article_service   — filtered listing, single-article CRUD, serialisation
#   feed_service      — followed-authors feed
#   comment_service   — comment CRUD
#   user_service      — the follow/profile queries the core depends on
#   pagination        — limit/offset coercion
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
