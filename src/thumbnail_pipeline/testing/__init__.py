"""Testing utilities and fakes for the thumbnail pipeline."""

from .fakes import (
    INPUT_BUCKET,
    OUTPUT_BUCKET,
    FakeS3Client,
    FakeLogger,
    FakeStreamingBody,
    FakeTagger,
    S3Object,
    S3Bucket,
    client_error,
    create_noisy_image,
    create_test_image,
    setup_test_s3_environment,
)

__all__ = [
    "INPUT_BUCKET",
    "OUTPUT_BUCKET",
    "FakeS3Client",
    "FakeLogger",
    "FakeStreamingBody",
    "FakeTagger",
    "S3Object",
    "S3Bucket",
    "client_error",
    "create_noisy_image",
    "create_test_image",
    "setup_test_s3_environment",
]
