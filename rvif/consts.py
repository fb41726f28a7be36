from enum import IntEnum


class PCSource(IntEnum):
    BOOT = 0
    JUMP = 1
    BRANCH = 2
    EXCEPTION = 3
    MRET = 4
    DRET = 5
    FENCEI = 6


class ExcPCSource(IntEnum):
    EXCEPTION = 0
    IRQ = 1
    DEBUG_ENTRY = 2
    DEBUG_EXCEPTION = 3


class AlignerState(IntEnum):
    ALIGNED32 = 0
    MISALIGNED32 = 1
    BRANCH_MISALIGNED = 2


PC_SOURCE_BITS = 3
EXC_PC_SOURCE_BITS = 3

MTVEC_BASE_BITS = 24
EXC_VEC_IDX_BITS = 5
