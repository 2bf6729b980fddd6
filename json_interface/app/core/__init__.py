SERVICE_NAME = "json_interface"
