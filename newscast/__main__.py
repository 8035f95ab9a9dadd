"""Entry point for `python -m newscast`.

Delegates to `python -m newscast.pipeline`, which runs the episode pipeline.
"""
import runpy
runpy.run_module("newscast.pipeline", run_name="__main__", alter_sys=True)
