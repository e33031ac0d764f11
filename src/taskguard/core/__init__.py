"""Core domain logic for TaskGuard: tasks, lifecycle, mapping and sync."""
