# Services package.
#
#   user_service      — profile CRUD, username search, follow counts
#   follow_service    — follower -> followed edges
#   post_service      — posts plus the authoritative like / comment rows
#   insights_service  — per-post metrics aggregate with live broadcast
#
# The first three are plain async functions taking an AsyncSession so the
# router layer controls the transaction boundary via ``get_db``.  The
# insights service is a class that owns its own short transactions; see
# its module docstring.
