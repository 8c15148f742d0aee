"""Collaborator services used by the bulk importer."""
