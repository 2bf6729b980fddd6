SERVICE_NAME = "engine"
