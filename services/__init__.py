"""Service layer: collaborators, authorization, catalog, rendering and workflows."""
