"""Local services: settings, daily practice log, health export.

Import from the submodules (``services.settings``, ``services.daily_log``,
``services.health``); the session package depends on ``services.settings``
while the log and export services depend on the session collaborators.
"""
