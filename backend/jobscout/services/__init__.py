"""Search pipeline services: sources, agents, caching and orchestration."""
