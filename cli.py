"""
Command-line interface for the upload relay service.

This module relays a local statement or receipt file through the same paths
the Lambda handler uses.
"""

import os
import sys
import json
import argparse
import mimetypes

from dotenv import load_dotenv

from upload_relay.core.errors import RelayError
from upload_relay.core.models import UploadedFile, UploadRequest, UploadType
from upload_relay.core.relay import UploadRelay
from upload_relay.utils.config import RELAY_MODES, RelayConfig
from upload_relay.utils.logger import setup_logger


def main(argv=None):
    """Main CLI entry point for the upload relay."""
    parser = argparse.ArgumentParser(
        description="Relay a credit card statement or transaction receipt to its workflow webhook",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  upload-relay statement.pdf --type statement --client-name Acme
  upload-relay receipt.jpg --client-name Acme --payment-by Jane --mode extract

Environment Variables Required:
  STATEMENT_WEBHOOK_URL - Webhook receiving statement uploads
  TRANSACTION_WEBHOOK_URL - Webhook receiving transaction uploads
  OPENAI_API_KEY - OpenAI API key (extract mode only)
        """
    )
    parser.add_argument(
        "file",
        help="Path of the file to relay"
    )
    parser.add_argument(
        "--type",
        dest="upload_type",
        default=UploadType.TRANSACTION.value,
        help="Upload type: 'statement', anything else is treated as a transaction (default: transaction)"
    )
    parser.add_argument(
        "--client-name",
        default="",
        help="Client name sent with the upload"
    )
    parser.add_argument(
        "--payment-by",
        help="Who paid (optional)"
    )
    parser.add_argument(
        "--mode",
        choices=RELAY_MODES,
        help="Relay mode (default: RELAY_MODE env var, or direct)"
    )

    args = parser.parse_args(argv)

    load_dotenv()

    logger = setup_logger("upload-relay")

    if not os.path.isfile(args.file):
        logger.error(f"File not found: {args.file}")
        sys.exit(1)

    try:
        config = RelayConfig.from_env()
        mode = args.mode or config.relay_mode

        mime_type, _ = mimetypes.guess_type(args.file)
        upload = UploadRequest(
            upload_type=UploadType.from_field(args.upload_type),
            raw_upload_type=args.upload_type,
            client_name=args.client_name,
            payment_by=args.payment_by,
            file=UploadedFile(
                path=args.file,
                filename=os.path.basename(args.file),
                mime_type=mime_type,
                size=os.path.getsize(args.file),
            ),
        )

        if not upload.has_file:
            logger.error(f"File is empty: {args.file}")
            sys.exit(1)

        logger.info(f"Relaying {args.file} as {upload.upload_type.value} upload (mode: {mode})")
        relay = UploadRelay(config, logger=logger)
        result = relay.relay(upload, mode)

        print(json.dumps(result, indent=2))
        sys.exit(0)

    except RelayError as e:
        logger.error(f"Error: {e}")
        print(json.dumps(e.to_body(), indent=2))
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
