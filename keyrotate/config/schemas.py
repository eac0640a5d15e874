"""Configuration file schemas for keyrotate."""

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "keyrotate": {
            "type": "object",
            "properties": {
                "data_root": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Directory holding one sub-directory per user",
                },
                "secrets_file": {
                    "type": "string",
                    "pattern": r"^[^/\\]+$",
                    "description": "Secrets file name inside a user directory",
                },
                "allow_keys_exposure": {
                    "type": "boolean",
                    "description": "Allow raw secret values to be read back",
                },
                "lock_timeout": {
                    "type": "number",
                    "exclusiveMinimum": 0,
                    "description": "Seconds to wait for exclusive access to a store",
                },
                "default_user": {
                    "type": "string",
                    "pattern": r"^[^/\\]+$",
                    "description": "User handle used when none is given",
                },
            },
            "additionalProperties": False,
        }
    },
    "required": ["keyrotate"],
    "additionalProperties": False,
}
