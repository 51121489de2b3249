"""BlueBerry: session-lock cycling scheduler."""
