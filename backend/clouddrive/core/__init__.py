"""Settings, logging, authentication and id helpers."""
