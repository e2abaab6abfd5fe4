"""HTTP service exposing payment routes."""
