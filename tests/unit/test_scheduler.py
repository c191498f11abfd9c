from warden.infra.scheduler import JobScheduler


async def _job():
    return None


def test_schedule_every_registers_single_instance_job():
    scheduler = JobScheduler()
    scheduler.schedule_every("ip-sync", _job, seconds=300)

    assert scheduler.job_ids() == ["ip-sync"]
    assert scheduler.running is False
    job = scheduler._scheduler.get_job("ip-sync")
    assert job.max_instances == 1
    assert job.coalesce is True
