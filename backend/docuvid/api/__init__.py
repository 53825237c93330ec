"""HTTP surface for the surrounding wizard."""
