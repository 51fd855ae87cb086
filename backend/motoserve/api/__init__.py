"""HTTP layer helpers for the motoserve API."""
