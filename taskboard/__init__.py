"""
Taskboard API package.

A FastAPI service exposing signup/login, per-user tasks and avatar upload,
delegating identity, persistence and object storage to a hosted Supabase
project.
"""
