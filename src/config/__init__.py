from .descriptor import ConnectionDescriptor, from_env, from_file, from_mapping

__all__ = ["ConnectionDescriptor", "from_env", "from_file", "from_mapping"]
