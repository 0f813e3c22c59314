"""HTTP surface: app factory, routes and streaming delivery."""
