from amaranth import *

from rvif.types import PipelineSlot


class IFIDRegister(Elaboratable):

    def __init__(self):
        self.if_valid = Signal()
        self.instr_valid = Signal()
        self.clear_instr_valid = Signal()

        self.instr = Signal(32)
        self.pc = Signal(32)
        self.is_compressed = Signal()
        self.illegal_compressed = Signal()
        self.fetch_failed = Signal()

        self.slot = Signal(PipelineSlot)

    def elaborate(self, platform):
        m = Module()

        # Frozen while decode stalls, reset comes from the sync domain
        with m.If(self.if_valid & self.instr_valid):
            m.d.sync += [
                self.slot.valid.eq(1),
                self.slot.instr.eq(self.instr),
                self.slot.pc.eq(self.pc),
                self.slot.is_compressed.eq(self.is_compressed),
                self.slot.illegal_compressed.eq(self.illegal_compressed),
                self.slot.fetch_failed.eq(0),
            ]
        with m.Elif(self.clear_instr_valid):
            m.d.sync += [
                self.slot.valid.eq(0),
                self.slot.fetch_failed.eq(self.fetch_failed),
            ]

        return m
