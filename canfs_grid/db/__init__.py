"""Remote row gateway interface and its PostgreSQL adapter."""
