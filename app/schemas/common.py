"""Field types shared across the API schemas."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, Field

from app.utils import as_utc


# SQLite hands back naive datetimes; values set during the request are
# aware. Normalising to UTC makes both serialise as "...Z".
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

OtpCode = Annotated[str, Field(pattern=r"^\d{6}$")]
