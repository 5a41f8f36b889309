import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/customer_db")

# Application Metadata
PROJECT_NAME = "Home Loan Customer Registration Service"
VERSION = "1.0.0"

# Outbox Relay Configuration
RELAY_INTERVAL = float(os.getenv("OUTBOX_RELAY_INTERVAL", 5)) # Seconds between relay cycles
BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", 50)) # How many events to fetch per cycle
MAX_RETRIES = int(os.getenv("OUTBOX_MAX_RETRIES", 10)) # Failed attempts before an event is marked FAILED
PUBLISH_TIMEOUT = float(os.getenv("OUTBOX_PUBLISH_TIMEOUT", 10)) # Seconds allowed for a single publish
OUTBOX_TOPIC = os.getenv("OUTBOX_TOPIC", "customer-topic")
RELAY_ENABLED = os.getenv("OUTBOX_RELAY_ENABLED", "true").lower() in ("1", "true", "yes")

# Broker Configuration
BROKER_BACKEND = os.getenv("BROKER_BACKEND", "kafka") # 'kafka' or 'log'
KAFKA_BOOTSTRAP_SERVERS = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")

# Home loan eligibility
MIN_CUSTOMER_AGE = int(os.getenv("MIN_CUSTOMER_AGE", 21))
MAX_CUSTOMER_AGE = int(os.getenv("MAX_CUSTOMER_AGE", 65))
