"""
This module initializes the API package for the career coach application.

Notes:
    1. Routes are defined in the `routes` subpackage and mounted by `app.main.create_app`.
    2. Service instances are resolved per request through `api.dependencies`.

"""
