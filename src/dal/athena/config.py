from dataclasses import dataclass

from common.config.env import get_env_float, get_env_int, get_env_str

# Athena rejects MaxResults above 1000.
MAX_RESULT_PAGE_SIZE = 1000


@dataclass(frozen=True)
class AthenaConfig:
    """Configuration required to open Athena query sessions."""

    region: str
    workgroup: str
    output_location: str
    database: str
    poll_interval_seconds: float = 1.0
    page_size: int = MAX_RESULT_PAGE_SIZE

    @classmethod
    def from_env(cls) -> "AthenaConfig":
        """Load Athena config from environment variables."""
        region = get_env_str("AWS_REGION")
        workgroup = get_env_str("ATHENA_WORKGROUP")
        output_location = get_env_str("ATHENA_OUTPUT_LOCATION")
        database = get_env_str("ATHENA_DATABASE")

        missing = [
            name
            for name, value in {
                "AWS_REGION": region,
                "ATHENA_WORKGROUP": workgroup,
                "ATHENA_OUTPUT_LOCATION": output_location,
                "ATHENA_DATABASE": database,
            }.items()
            if not value
        ]
        if missing:
            missing_list = ", ".join(missing)
            raise ValueError(
                f"Athena query sessions missing required config: {missing_list}. "
                "Set AWS_REGION, ATHENA_WORKGROUP, ATHENA_OUTPUT_LOCATION, and ATHENA_DATABASE."
            )

        page_size = get_env_int("ATHENA_RESULT_PAGE_SIZE", MAX_RESULT_PAGE_SIZE)
        return cls(
            region=region,
            workgroup=workgroup,
            output_location=output_location,
            database=database,
            poll_interval_seconds=get_env_float("ATHENA_POLL_INTERVAL_SECONDS", 1.0),
            page_size=max(1, min(page_size, MAX_RESULT_PAGE_SIZE)),
        )
