"""DocTrack database layer — models, engine registry and sessions."""
