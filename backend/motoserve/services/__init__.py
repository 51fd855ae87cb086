"""Service layer for the motoserve booking core."""
