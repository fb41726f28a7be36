from rvif.if_stage import IFStage
from rvif.interface import OBI
from rvif.types import PipelineSlot
from rvif.consts import PCSource, ExcPCSource
