"""HTTP routes for the admin API and the public popup endpoints."""
