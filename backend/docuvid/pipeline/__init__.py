"""Generation phases: per-scene image and video batches."""
