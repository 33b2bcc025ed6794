# Infrastructure clients
from clients.vault_client import DatabaseSettings, VaultError, load_database_settings
from clients.postgres_client import PostgresClient, PostgresTransaction
