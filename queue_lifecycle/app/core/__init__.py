SERVICE_NAME = "queue_lifecycle"
