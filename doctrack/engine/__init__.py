"""DocTrack Engine — Configuration, errors, logging, security and validation."""
