"""CRM application package: models, services and the bulk importer."""
