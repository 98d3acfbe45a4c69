"""
Configuration Package for the Encode Orchestrator.

This package centralizes the configuration of the application:
- `common`: static constants such as the limits and fixed names of the remote
  encoding service, its REST headers and the logging format.
- `settings`: deployment-specific values (endpoints, tokens, default containers)
  loaded from 'config.user.yaml' and `ENCODE_*` environment variables.
"""
