"""External collaborators: generation backends and object storage."""
