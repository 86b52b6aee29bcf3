"""Project package for the carequeue patient-queue service."""
