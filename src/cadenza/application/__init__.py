"""Application layer: services orchestrating the library core."""
