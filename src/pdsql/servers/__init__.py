"""DNS listeners and the shared query pipeline."""
