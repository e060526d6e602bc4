"""Salon front-desk scheduling core."""
