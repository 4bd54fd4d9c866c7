"""Configuration loading (YAML, .env, environment) and typed builders."""
