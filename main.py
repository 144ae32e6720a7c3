import asyncio
import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from resumable_upload.upload.config import MB, UploadConfig, LocalStorageConfig, load_config
from resumable_upload.upload.service import ChunkedUploadService
from resumable_upload.storage import create_storage_adapter
from resumable_upload.server.server import UploadServer
from resumable_upload.client.client import UploadClient
from resumable_upload.benchmark.benchmark import Benchmarker, DEFAULT_PAYLOAD_SIZES

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('resumable_upload.log')
    ]
)
logger = logging.getLogger(__name__)


def build_config(args):
    """Merge the optional YAML file with command-line overrides"""
    if args.config:
        upload_config, storage_config = load_config(Path(args.config))
    else:
        upload_config, storage_config = UploadConfig(), LocalStorageConfig()

    upload_overrides = {
        'max_file_size': args.max_file_size,
        'chunk_size': args.chunk_size,
        'max_chunk_size': args.max_chunk_size,
        'temp_dir': args.temp_dir,
        'cleanup_interval': args.cleanup_interval,
        'max_retries': args.max_retries,
    }
    storage_overrides = {
        'upload_dir': args.storage_dir,
        'base_url': args.base_url,
    }

    upload_config = replace(
        upload_config, **{k: v for k, v in upload_overrides.items() if v is not None}
    )
    storage_config = replace(
        storage_config, **{k: v for k, v in storage_overrides.items() if v is not None}
    )
    return upload_config, storage_config


async def run_server(args):
    """Run server mode"""
    logger.info("=== Starting Chunked Upload Server ===")

    upload_config, storage_config = build_config(args)
    storage = create_storage_adapter(
        'local',
        upload_dir=storage_config.upload_dir,
        base_url=storage_config.base_url
    )

    logger.info(
        f"Chunk size {upload_config.chunk_size} bytes, "
        f"max file size {upload_config.max_file_size} bytes, "
        f"temp dir {upload_config.temp_dir}"
    )

    service = ChunkedUploadService(storage, upload_config)
    server = UploadServer(host=args.host, port=args.port, service=service)

    try:
        await server.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


async def run_client(args):
    """Run client mode"""
    upload_config, _ = build_config(args)

    if not args.file and not args.session_id:
        raise SystemExit("client mode needs --file or --session-id")

    def on_progress(percent: float):
        logger.info(f"Progress: {percent:.1f}%")

    client = UploadClient(
        host=args.host,
        port=args.port,
        max_retries=upload_config.max_retries,
        timeout=args.timeout,
        on_progress=on_progress
    )

    async with client:
        if args.session_id:
            progress = await client.get_progress(args.session_id)
            if progress is None:
                logger.info(f"Session {args.session_id} not found")
            else:
                logger.info(
                    f"Session {args.session_id}: {progress.uploaded_chunks}/"
                    f"{progress.total_chunks} chunks ({progress.percentage:.1f}%)"
                )
            return

        path = Path(args.file)
        if not path.is_file():
            raise SystemExit(f"File not found: {path}")

        logger.info(f"=== Uploading {path} to {args.host}:{args.port} ===")
        result = await client.upload_file(path)
        logger.info(f"Uploaded {result.file_name} ({result.size} bytes): {result.url}")


async def run_benchmark(args):
    """Run benchmark mode"""
    logger.info("=== Starting Chunked Upload Benchmark ===")

    benchmarker = Benchmarker(
        output_dir=Path(args.output),
        chunk_size=args.chunk_size or 1 * MB
    )

    if args.sizes:
        sizes = [int(float(s) * MB) for s in args.sizes.split(',')]
    else:
        sizes = list(DEFAULT_PAYLOAD_SIZES)

    await benchmarker.test_all_sizes(sizes, iterations=args.iterations)

    benchmarker.save_results()

    if not args.no_plot:
        benchmarker.generate_report()

    logger.info("Benchmark completed")


def create_parser():
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        description='Resumable chunked file uploads',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start server
  python main.py server --host 0.0.0.0 --port 9000 --storage-dir ./uploads

  # Upload a file
  python main.py client --host localhost --port 9000 --file video.mp4

  # Query server-side progress of a session
  python main.py client --session-id 3f0c...

  # Run benchmarks with 2MB and 16MB payloads
  python main.py benchmark --sizes 2,16
        """
    )

    # Mode selection
    parser.add_argument(
        'mode',
        choices=['server', 'client', 'benchmark'],
        help='Execution mode'
    )

    # Common arguments
    parser.add_argument(
        '--host',
        default='localhost',
        help='Server hostname (default: localhost)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=9000,
        help='Server port (default: 9000)'
    )
    parser.add_argument(
        '--config',
        help='YAML configuration file with upload/storage sections'
    )

    # Upload limits
    parser.add_argument(
        '--chunk-size',
        type=int,
        help='Chunk size in bytes (default: 5MB)'
    )
    parser.add_argument(
        '--max-chunk-size',
        type=int,
        help='Largest accepted chunk in bytes (default: 5MB)'
    )
    parser.add_argument(
        '--max-file-size',
        type=int,
        help='Largest accepted file in bytes (default: 2GB)'
    )
    parser.add_argument(
        '--temp-dir',
        help='Directory for in-flight chunks'
    )
    parser.add_argument(
        '--cleanup-interval',
        type=float,
        help='Idle session eviction interval in seconds (default: 3600)'
    )
    parser.add_argument(
        '--max-retries',
        type=int,
        help='Attempts per chunk before the upload is aborted (default: 3)'
    )

    # Storage
    parser.add_argument(
        '--storage-dir',
        help='Directory completed uploads are written to (default: ./uploads)'
    )
    parser.add_argument(
        '--base-url',
        help='URL prefix of stored files (default: /uploads)'
    )

    # Client-specific arguments
    parser.add_argument(
        '--file',
        help='File to upload'
    )
    parser.add_argument(
        '--session-id',
        help='Report server-side progress of this session instead of uploading'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        help='Per-request network timeout in seconds'
    )

    # Benchmark-specific arguments
    parser.add_argument(
        '--output',
        default='./benchmarks',
        help='Benchmark output directory (default: ./benchmarks)'
    )
    parser.add_argument(
        '--sizes',
        help='Comma separated payload sizes in MB (default: 1,8,32)'
    )
    parser.add_argument(
        '--iterations',
        type=int,
        default=5,
        help='Number of benchmark iterations (default: 5)'
    )
    parser.add_argument(
        '--no-plot',
        action='store_true',
        help='Skip generating plots'
    )

    # Logging
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--quiet',
        action='store_true',
        help='Minimal output'
    )

    return parser


async def main():
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()

    # Adjust logging level
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    # Route to appropriate mode
    try:
        if args.mode == 'server':
            await run_server(args)
        elif args.mode == 'client':
            await run_client(args)
        elif args.mode == 'benchmark':
            await run_benchmark(args)
    except KeyboardInterrupt:
        logger.info("\nShutdown requested by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


def cli():
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == '__main__':
    cli()
