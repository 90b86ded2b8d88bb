"""Async provisioning of DynamoDB tables for versioned data models."""
