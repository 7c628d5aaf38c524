"""Back-office accounting application.

This package contains the models, services, serializers and views for the
hospital account, advance house rent, fixed assets, vendors and stock.
"""
