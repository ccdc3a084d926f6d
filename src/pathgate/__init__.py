from .dsl import job, sh, rule, matrix, wf, JobBuilder, build, ROOT_FILES
from .predicate import flag, any_of, all_of, parse as parse_predicate
from .classifier import Classifier, FlagSet, classify
from .engine import GateEngine, OutcomeBoard, aggregate, eligible
from .runner import run_pipeline, load_workflow
from .model import Job, JobState, JobTrigger, Pipeline, Rule, RunResult, Step

__all__ = [
    "job", "sh", "rule", "matrix", "wf", "JobBuilder", "build", "ROOT_FILES",
    "flag", "any_of", "all_of", "parse_predicate",
    "Classifier", "FlagSet", "classify",
    "GateEngine", "OutcomeBoard", "aggregate", "eligible",
    "run_pipeline", "load_workflow",
    "Job", "JobState", "JobTrigger", "Pipeline", "Rule", "RunResult", "Step",
]
