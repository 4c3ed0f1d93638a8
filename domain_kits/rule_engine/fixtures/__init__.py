"""Sample rule sets for the demo applications (input state + rules config)."""
