"""Infrastructure adapters: FastAPI, TaskIQ and observability."""
