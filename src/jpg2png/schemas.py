"""Pydantic response models for the HTTP service."""

from __future__ import annotations

import base64

from pydantic import BaseModel, Field

from jpg2png.models import ConversionResult, ImageMetadata


class ImageInfo(BaseModel):
    format: str
    width: int
    height: int
    size: int
    channels: int
    hasAlpha: bool

    @classmethod
    def from_metadata(cls, metadata: ImageMetadata, size: int) -> ImageInfo:
        return cls(
            format=metadata.format.value,
            width=metadata.width,
            height=metadata.height,
            size=size,
            channels=metadata.channels,
            hasAlpha=metadata.has_alpha,
        )


class ProcessingInfo(BaseModel):
    appliedOptions: list[str]
    sizeChange: int
    sizeChangePercent: str
    compressionRatio: str


class ConversionMetadata(BaseModel):
    original: ImageInfo
    final: ImageInfo
    processing: ProcessingInfo


class ConversionResponse(BaseModel):
    success: bool = True
    message: str
    image: str = Field(description="Converted image as a base64 data URI")
    originalSize: int
    processedSize: int
    processingTime: int = Field(ge=0, description="Wall-clock time in milliseconds")
    appliedOptions: list[str]
    metadata: ConversionMetadata

    @classmethod
    def from_result(cls, result: ConversionResult, elapsed_ms: int) -> ConversionResponse:
        """Serialise a ConversionResult into the JSON success envelope."""
        applied = [option.value for option in result.applied_options]
        encoded = base64.b64encode(result.buffer).decode("ascii")
        return cls(
            message="Conversion completed successfully",
            image=f"data:{result.mime_type};base64,{encoded}",
            originalSize=result.original_size,
            processedSize=result.final_size,
            processingTime=elapsed_ms,
            appliedOptions=applied,
            metadata=ConversionMetadata(
                original=ImageInfo.from_metadata(result.original_metadata, result.original_size),
                final=ImageInfo.from_metadata(result.final_metadata, result.final_size),
                processing=ProcessingInfo(
                    appliedOptions=applied,
                    sizeChange=result.size_change.size_change_bytes,
                    sizeChangePercent=result.size_change.size_change_percent,
                    compressionRatio=result.size_change.compression_ratio,
                ),
            ),
        )


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str


class OptionInfo(BaseModel):
    id: str
    name: str
    description: str
    category: str
    presets: list[str]


class OptionsResponse(BaseModel):
    options: list[OptionInfo]
