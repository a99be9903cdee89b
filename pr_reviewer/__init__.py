"""pr-reviewer: automated review, fix and push over open GitHub PRs."""
