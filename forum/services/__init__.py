# Services package.
#
# Each module exposes a focused set of async functions for one concern:
#
#   user_service     — credential store: signup, lookup, password checks
#   post_service     — post listing, detail, creation and deletion
#   comment_service  — adding and removing comments on a post
#   vote_service     — the vote ledger: score and upvote percentage
#
# All service functions accept an AsyncSession as their first argument.
# Most only flush and leave the commit to the ``get_db`` dependency;
# vote_service commits itself so the per-post lock covers the write.
