from amaranth import *
from amaranth.lib import data

DEFAULT_PARAMS = dict(
    fetch_buffer_depth=2,
    use_fpu=False,
)


class HasFetchParams:

    def __init__(self, params, *args, **kwargs):
        self.params = params

        self.xlen = 32

        #
        # Instruction fetch
        #

        self.fetch_bytes = 4
        self.fetch_buffer_depth = params.get(
            'fetch_buffer_depth', DEFAULT_PARAMS['fetch_buffer_depth'])
        assert self.fetch_buffer_depth >= 1

        #
        # Decompressor
        #

        self.use_fpu = params.get('use_fpu', DEFAULT_PARAMS['use_fpu'])


class PipelineSlot(data.Struct):
    valid: unsigned(1)
    instr: unsigned(32)
    pc: unsigned(32)
    is_compressed: unsigned(1)
    illegal_compressed: unsigned(1)
    fetch_failed: unsigned(1)
