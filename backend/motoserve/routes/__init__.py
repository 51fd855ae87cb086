"""HTTP routers for the motoserve API."""
