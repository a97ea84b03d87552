# API Module - Local HTTP surface over VaultManager
