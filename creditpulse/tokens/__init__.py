"""Short-lived signed token protocol: broker, checker, replay protection."""
