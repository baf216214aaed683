#!/usr/bin/env python3
"""
Demo script — publish a sample event to the processor's topics.

Useful for exercising a locally running processor end to end
(Kafka + MinIO + the antivirus/submission API stubs).

Usage:
    cd backend
    python -m scripts.publish_event create --id abc123 --file-type zip --url http://host/file.zip
    python -m scripts.publish_event scan --id abc123 --file-name abc123.zip --infected
"""

import argparse
import asyncio
import json
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def build_create_event(topic: str, args: argparse.Namespace) -> dict:
    return {
        "topic": topic,
        "originator": "submission-api",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "mime-type": "application/json",
        "payload": {
            "resource": "submission",
            "id": args.id,
            "url": args.url,
            "fileType": args.file_type,
            "isFileSubmission": True,
        },
    }


def build_scan_event(topic: str, args: argparse.Namespace) -> dict:
    return {
        "topic": topic,
        "originator": "anti-virus-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "mime-type": "application/json",
        "payload": {
            "submissionId": args.id,
            "fileName": args.file_name or f"{args.id}.zip",
            "url": args.url,
            "status": "scanned",
            "isInfected": args.infected,
        },
    }


async def publish(topic: str, event: dict) -> None:
    from aiokafka import AIOKafkaProducer
    from scan_processor.core.config import settings

    producer = AIOKafkaProducer(bootstrap_servers=settings.KAFKA_URL)
    await producer.start()
    try:
        metadata = await producer.send_and_wait(topic, json.dumps(event).encode("utf-8"))
        print(f"  ✓ Published to {topic} partition={metadata.partition} offset={metadata.offset}")
    finally:
        await producer.stop()


def main() -> None:
    from scan_processor.core.config import settings

    parser = argparse.ArgumentParser(description="Publish a sample processor event")
    parser.add_argument("kind", choices=["create", "scan"])
    parser.add_argument("--id", default="abc123", help="Submission id")
    parser.add_argument("--file-type", default="zip")
    parser.add_argument("--file-name", default=None)
    parser.add_argument("--url", default="http://localhost:8080/file.zip")
    parser.add_argument("--infected", action="store_true")
    args = parser.parse_args()

    if args.kind == "create":
        topic = settings.SUBMISSION_CREATE_TOPIC
        event = build_create_event(topic, args)
    else:
        topic = settings.AVSCAN_TOPIC
        event = build_scan_event(topic, args)

    print(json.dumps(event, indent=2))
    asyncio.run(publish(topic, event))


if __name__ == "__main__":
    main()
