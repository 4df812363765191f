# collabtrack/schemas/common_schema.py
from pydantic import BaseModel


class Message(BaseModel):
    message: str
