"""Django project package for the clinic front-desk backend."""
