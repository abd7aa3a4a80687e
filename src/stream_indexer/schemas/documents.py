"""
Payload and search document schemas.

Pydantic models for the object-store reference carried by files-mode
records and for the two document types written to the search store.
Field aliases match the camelCase JSON used on the wire and in the
index mappings.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ObjectReference(BaseModel):
    """Pointer to an uploaded object, as produced by the upload service.

    Example:
        >>> ref = ObjectReference.model_validate({
        ...     "bucket": "s3-upload-bucket",
        ...     "key": "catalog.json",
        ...     "contentType": "application/json",
        ...     "size": 42,
        ...     "timestamp": "2024-01-01T00:00:00Z",
        ... })
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bucket: str = Field(..., min_length=1, description="Bucket holding the object")
    key: str = Field(..., min_length=1, description="Object key")
    # Metadata is carried into the file document as the uploader sent it
    content_type: Any = Field(default=None, alias="contentType")
    size: Any = None
    timestamp: Any = Field(default=None, description="Upload time, ISO 8601 or epoch")

    @property
    def s3_location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class FileDocument(BaseModel):
    """Document for the files index: object metadata plus full text content."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName")
    content: str
    content_type: Any = Field(default=None, alias="contentType")
    size: Any = None
    timestamp: Any = None
    s3_location: str = Field(..., alias="s3Location")

    @classmethod
    def from_reference(cls, reference: ObjectReference, content: str) -> "FileDocument":
        return cls(
            file_name=reference.key,
            content=content,
            content_type=reference.content_type,
            size=reference.size,
            timestamp=reference.timestamp,
            s3_location=reference.s3_location,
        )

    @property
    def document_id(self) -> str:
        """Natural key: the object location, so re-delivery overwrites."""
        return self.s3_location

    def to_index_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ProductDocument(BaseModel):
    """Document for the products index."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    # Only the id is checked; the rest is indexed as received
    name: Any = None
    description: Any = None
    price: Any = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Accept numeric ids; they are stored as keywords."""
        if isinstance(v, bool):
            raise ValueError("id must be a string or number")
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @property
    def document_id(self) -> str:
        return self.id

    def to_index_body(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
