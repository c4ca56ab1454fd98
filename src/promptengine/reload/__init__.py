"""Live reload of the template set."""
