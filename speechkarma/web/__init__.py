# Identity and service wiring for the HTTP layer.
