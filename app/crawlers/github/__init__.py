"""GitHub collaborator supplying activity snapshots and deploy status."""
