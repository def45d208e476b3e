# Reference data and its loader.
