from amaranth import *

from rvif.consts import (PCSource, PC_SOURCE_BITS, EXC_PC_SOURCE_BITS,
                         MTVEC_BASE_BITS, EXC_VEC_IDX_BITS)
from rvif.types import HasFetchParams, PipelineSlot
from rvif.exc import ExceptionVectorUnit
from rvif.pc_sel import PCSelector
from rvif.handshake import FetchHandshake
from rvif.fetch_unit import FetchUnit
from rvif.aligner import Aligner
from rvif.rvc import RVCDecoder
from rvif.if_id import IFIDRegister


class IFStage(HasFetchParams, Elaboratable):

    def __init__(self, ibus, params):
        super().__init__(params)

        self.ibus = ibus

        #
        # Upstream control
        #

        self.req = Signal()

        self.boot_addr = Signal(self.xlen)
        self.dm_halt_addr = Signal(self.xlen)
        self.dm_exception_addr = Signal(self.xlen)

        self.mtvec_base = Signal(MTVEC_BASE_BITS)
        self.exc_vec_idx = Signal(EXC_VEC_IDX_BITS)

        self.jump_target_id = Signal(self.xlen)
        self.jump_target_ex = Signal(self.xlen)
        self.mepc = Signal(self.xlen)
        self.depc = Signal(self.xlen)

        self.pc_mux = Signal(PC_SOURCE_BITS)
        self.exc_pc_mux = Signal(EXC_PC_SOURCE_BITS)
        self.pc_set = Signal()

        self.halt_if = Signal()
        self.id_ready = Signal()
        self.clear_instr_valid = Signal()

        self.fetch_failed = Signal()

        #
        # Downstream
        #

        self.slot = Signal(PipelineSlot)
        self.pc_if = Signal(self.xlen)
        self.csr_mtvec_init = Signal()
        self.if_busy = Signal()
        self.perf_imiss = Signal()

        self.redirect = Signal()
        self.redirect_addr = Signal(self.xlen)
        self.fetch_ready = Signal()

    def elaborate(self, platform):
        m = Module()

        exc_vec = m.submodules.exc_vec = ExceptionVectorUnit(self.xlen)
        pc_sel = m.submodules.pc_sel = PCSelector(self.xlen)
        handshake = m.submodules.handshake = FetchHandshake()
        fetch_unit = m.submodules.fetch_unit = FetchUnit(
            self.ibus, self.params)
        aligner = m.submodules.aligner = Aligner()
        rvc = m.submodules.rvc = RVCDecoder(self.use_fpu)
        if_id = m.submodules.if_id = IFIDRegister()

        #
        # Next PC select
        #

        m.d.comb += [
            exc_vec.exc_pc_mux.eq(self.exc_pc_mux),
            exc_vec.mtvec_base.eq(self.mtvec_base),
            exc_vec.exc_vec_idx.eq(self.exc_vec_idx),
            exc_vec.dm_halt_addr.eq(self.dm_halt_addr),
            exc_vec.dm_exception_addr.eq(self.dm_exception_addr),
        ]

        m.d.comb += [
            pc_sel.pc_mux.eq(self.pc_mux),
            pc_sel.boot_addr.eq(self.boot_addr),
            pc_sel.jump_target_id.eq(self.jump_target_id),
            pc_sel.jump_target_ex.eq(self.jump_target_ex),
            pc_sel.exc_pc.eq(exc_vec.exc_pc),
            pc_sel.mepc.eq(self.mepc),
            pc_sel.depc.eq(self.depc),
            pc_sel.pc_id.eq(if_id.slot.pc),
        ]

        m.d.comb += [
            self.redirect_addr.eq(pc_sel.branch_addr),
            self.csr_mtvec_init.eq(self.pc_set
                                   & (self.pc_mux == PCSource.BOOT)),
        ]

        #
        # Fetch handshake
        #

        m.d.comb += [
            handshake.pc_set.eq(self.pc_set),
            handshake.req.eq(self.req),
            handshake.halt_if.eq(self.halt_if),
            handshake.id_ready.eq(self.id_ready),
            handshake.fetch_valid.eq(fetch_unit.valid),
            handshake.fetch_busy.eq(fetch_unit.busy),
            handshake.aligner_ready.eq(aligner.ready),
        ]

        m.d.comb += [
            self.redirect.eq(handshake.redirect),
            self.fetch_ready.eq(handshake.consume_ready),
            self.if_busy.eq(handshake.busy),
            self.perf_imiss.eq(handshake.miss),
        ]

        m.d.comb += [
            fetch_unit.req.eq(self.req),
            fetch_unit.redirect.eq(handshake.redirect),
            fetch_unit.redirect_addr.eq(pc_sel.branch_addr),
            fetch_unit.consume_ready.eq(handshake.consume_ready),
        ]

        #
        # Align and decompress
        #

        m.d.comb += [
            aligner.fetch_valid.eq(fetch_unit.valid),
            aligner.fetch_rdata.eq(fetch_unit.rdata),
            aligner.if_valid.eq(handshake.if_valid),
            aligner.redirect.eq(handshake.redirect),
            aligner.redirect_addr.eq(pc_sel.branch_addr),
            self.pc_if.eq(aligner.pc),
        ]

        m.d.comb += rvc.instr_i.eq(aligner.instr_aligned)

        #
        # IF/ID pipeline register
        #

        m.d.comb += [
            if_id.if_valid.eq(handshake.if_valid),
            if_id.instr_valid.eq(aligner.instr_valid),
            if_id.clear_instr_valid.eq(self.clear_instr_valid),
            if_id.instr.eq(rvc.instr_o),
            if_id.pc.eq(aligner.pc),
            if_id.is_compressed.eq(rvc.is_compressed),
            if_id.illegal_compressed.eq(rvc.illegal),
            if_id.fetch_failed.eq(self.fetch_failed),
            self.slot.eq(if_id.slot),
        ]

        return m
