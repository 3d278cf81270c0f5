import logging
import os

# Configure logging to reduce verbosity - set at the very beginning
logging.basicConfig(level=logging.ERROR, force=True)
logging.getLogger().setLevel(logging.ERROR)
logging.getLogger("dagster").setLevel(logging.ERROR)
logging.getLogger("dagster._core").setLevel(logging.ERROR)
logging.getLogger("dagster._core.executor").setLevel(logging.ERROR)
logging.getLogger("dagster._core.execution").setLevel(logging.ERROR)
logging.getLogger("dagster_read_ingest").setLevel(logging.INFO)

from dagster import Definitions, definitions
from dagster.components.core.component_tree import ComponentTree

from .components.read_loader_component import ParallelReadLoaderComponent

BAM_URL = "https://s3.amazonaws.com/1000genomes/phase3/data/HG00096/alignment/HG00096.chrom20.ILLUMINA.bwa.GBR.low_coverage.20120522.bam"


@definitions
def defs():
    context = ComponentTree.for_test().load_context

    alignment_loader = ParallelReadLoaderComponent(
        name="alignment_reads",
        path=os.environ.get("READ_INGEST_PATH", BAM_URL),
        intervals=os.environ.get("READ_INGEST_INTERVALS", "").split() or None,
    )

    loaders = [alignment_loader]
    columnar_path = os.environ.get("READ_INGEST_COLUMNAR_PATH")
    if columnar_path:
        loaders.append(
            ParallelReadLoaderComponent(
                name="columnar_reads",
                path=columnar_path,
                read_format="columnar",
                header_path=os.environ.get("READ_INGEST_HEADER_PATH"),
            )
        )

    return Definitions.merge(*(loader.build_defs(context) for loader in loaders))
