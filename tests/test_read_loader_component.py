import dagster

from dagster_read_ingest.components.read_loader_component import (
    ParallelReadLoaderComponent,
)
from dagster_read_ingest.components.read_partition_stats import (
    partition_stats,
    summarize_partitions,
)


def test_component_job_loads_all_placed_reads(scenario_bam):
    component = ParallelReadLoaderComponent(name="scenario", path=str(scenario_bam))

    result = component.build_job().execute_in_process()

    assert result.success
    summary = result.output_for_node("scenario_summarize_reads")
    assert summary["partitions"] == 1
    assert summary["reads"] == 5
    assert summary["mapped_reads"] == 3
    assert summary["unmapped_reads"] == 2


def test_component_job_filters_configured_intervals(scenario_bam):
    component = ParallelReadLoaderComponent(
        name="scenario", path=str(scenario_bam), intervals=["chr1:100-200"]
    )

    result = component.build_job().execute_in_process()

    loaded = result.output_for_node("scenario_load_partition")
    assert [read.name for read in loaded["partition_0"].reads] == [
        "mapped_inside",
        "unmapped_placed_inside",
    ]


def test_run_config_overrides_intervals(scenario_bam):
    component = ParallelReadLoaderComponent(name="scenario", path=str(scenario_bam))

    result = component.build_job().execute_in_process(
        run_config={"ops": {"scenario_plan_partitions": {"config": {"intervals": ["chr2"]}}}}
    )

    # Placed unmapped reads are checked against the first interval by coordinate only.
    summary = result.output_for_node("scenario_summarize_reads")
    assert summary["reads"] == 3
    assert summary["mapped_reads"] == 1


def test_columnar_component_fans_out_partitions(tmp_path, write_parquet, write_alignments, columnar_rows):
    parquet = write_parquet(tmp_path / "reads.parquet", columnar_rows)
    header_bam = write_alignments(tmp_path / "header.bam", [])
    component = ParallelReadLoaderComponent(
        name="columnar",
        path=str(parquet),
        read_format="columnar",
        header_path=str(header_bam),
        max_split_size=1,
    )

    result = component.build_job().execute_in_process()

    summary = result.output_for_node("columnar_summarize_reads")
    assert summary["partitions"] == 3
    assert summary["reads"] == 5
    assert summary["unmapped_reads"] == 1
    loaded = result.output_for_node("columnar_load_partition")
    assert loaded["partition_0"].reads[1].contig == "chr2"


def test_missing_input_fails_the_run(tmp_path):
    component = ParallelReadLoaderComponent(name="missing", path=str(tmp_path / "missing.bam"))

    result = component.build_job().execute_in_process(raise_on_error=False)

    assert not result.success


def test_build_defs_exposes_job(scenario_bam):
    component = ParallelReadLoaderComponent(name="scenario", path=str(scenario_bam))

    defs = component.build_defs(None)

    assert isinstance(defs, dagster.Definitions)


def test_partition_stats_and_summary():
    assert partition_stats(0, []) == {
        "partition": 0,
        "reads": 0,
        "mapped_reads": 0,
        "unmapped_reads": 0,
        "total_bases": 0,
        "avg_read_length": 0.0,
        "avg_mapping_quality": 0.0,
    }
    summary = summarize_partitions(
        [
            {"reads": 2, "mapped_reads": 1, "total_bases": 20, "avg_mapping_quality": 30.0},
            {"reads": 2, "mapped_reads": 2, "total_bases": 30, "avg_mapping_quality": 60.0},
        ]
    )
    assert summary["reads"] == 4
    assert summary["unmapped_reads"] == 1
    assert summary["mapping_rate"] == 0.75
    assert summary["avg_read_length"] == 12.5
    assert summary["avg_mapping_quality"] == 45.0


def test_summary_collects_only_partition_stats(tmp_path, write_indexed_bam):
    bam = write_indexed_bam(tmp_path / "indexed.bam", 2000)
    component = ParallelReadLoaderComponent(name="indexed", path=str(bam), max_split_size=1)
    read_ingest_job = component.build_job()

    dependencies = {node.name: inputs for node, inputs in read_ingest_job.dependencies.items()}
    assert dependencies["indexed_summarize_reads"]["partitions"].node_name == "indexed_partition_stats"

    result = read_ingest_job.execute_in_process()

    stats = result.output_for_node("indexed_partition_stats")
    assert len(stats) > 1
    assert all(isinstance(s, dict) for s in stats.values())
    assert sum(s["reads"] for s in stats.values()) == 2000
    assert result.output_for_node("indexed_summarize_reads")["partitions"] == len(stats)
