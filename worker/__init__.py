"""LIFT audit service - Worker Package.

Holds the audit document core (``worker.audit``) and the audit pipeline
task (``worker.tasks``); neither depends on the web layer beyond
settings and exceptions.
"""
