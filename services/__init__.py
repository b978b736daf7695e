"""Session services: rotation protocol and the façade the API calls."""
