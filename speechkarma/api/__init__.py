# HTTP routes for the statement archive.
