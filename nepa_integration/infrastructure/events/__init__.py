"""In-process event bus used for explicit publish/subscribe wiring."""
